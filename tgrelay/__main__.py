from tgrelay.main import cli

cli()
