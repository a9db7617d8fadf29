from phatpkg import cli

cli.cli()
