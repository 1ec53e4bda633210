from tapesim.main import cli

cli()
