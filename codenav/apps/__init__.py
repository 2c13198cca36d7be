"""Command-line front end for codenav."""
