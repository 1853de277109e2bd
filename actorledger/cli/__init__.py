"""Command-line tools (``python -m actorledger.cli.<tool>``)."""
