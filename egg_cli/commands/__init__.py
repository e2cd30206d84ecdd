"""Click subcommands for the egg CLI."""
