from reef.cli import app

app(prog_name="reef")
