from engage.cli import app

app(prog_name="engage")
