"""Mafia Showdown server: match engine, persistence and WebSocket transport."""
