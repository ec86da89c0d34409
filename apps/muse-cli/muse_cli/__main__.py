from muse_cli.cli import app

app()
