from codestickies.cli import app

app(prog_name="codestickies")
