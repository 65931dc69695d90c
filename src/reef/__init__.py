"""Keep a mirrored twin directory next to a project and link files into it."""
