"""Encoder entities, controllers and the command line front end."""
