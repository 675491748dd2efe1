"""1v1 code duel sessions: rooms, matchmaking, readiness, countdowns and results.

Everything here is in-memory and lives as long as the process. Transport
(Socket.IO handlers, HTTP routes) talks to ``SessionCoordinator`` only.
"""
