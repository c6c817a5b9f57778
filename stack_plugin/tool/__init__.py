"""Command line tool for running stack-plugin as an Argo CD Config Management Plugin."""
