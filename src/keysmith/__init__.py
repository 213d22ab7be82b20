"""keysmith -- Declarative lifecycle management for cloud API keys.

This package creates, reads, updates, and deletes API keys against a cloud
control plane. Mutating calls return a long-running *async operation* that
is polled to completion before the canonical key is re-fetched and
translated back into the local model.

Typical workflow::

    keysmith plan  -f keys.yaml     # show what would change
    keysmith apply -f keys.yaml     # create / update / replace / delete keys

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models for configuration, wire shapes, and resources.
    enums: Translation tables between wire and local enum values.
    operations: The async-operation waiter.
    resource: The API key resource controller.
    plan: Desired-config diffing and apply.
    state: Local tracking of managed keys.
    config: XDG-aware configuration and profile management.
    exceptions: Exception hierarchy with exit-code mapping.
"""

__version__ = "0.1.0"
