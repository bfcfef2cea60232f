"""Discord interaction handling for Gamenight.

Discord delivers every interaction as a signed HTTP POST; there is no gateway
connection. The router turns each one into a single response envelope and
the synchronizer keeps every posted copy of a game or poll up to date.
"""
