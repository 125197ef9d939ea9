"""Enums, constants and wire protocol shared by server and client."""
