"""Engine connector core.

Modules:
- channel: ProcessChannel implementations for pipe I/O with the engine
- launcher: ProcessLauncher for spawning the engine process
- session: EngineSession, the UCI move-request client
- lifecycle: SessionLifecycle for orderly shutdown and reaping
"""
