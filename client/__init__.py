"""Headless client for the Mafia Showdown server."""
