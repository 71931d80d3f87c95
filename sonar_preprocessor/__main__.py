from sonar_preprocessor.cli import cli

cli()
