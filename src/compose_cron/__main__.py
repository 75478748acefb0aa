from compose_cron.cli import app

app()
