"""Survey orchestration, HTTP API and command line interface."""
