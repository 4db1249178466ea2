"""codex-relay CLI entry point."""

from codex_relay.cli import app

if __name__ == "__main__":
    app()
