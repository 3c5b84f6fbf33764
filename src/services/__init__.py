"""Service layer for StoreCommand.

Platform access (adapter, catalog clients, platform lookup), command
lifecycle management, undo, and automation bookkeeping. Import from the
submodules directly.
"""
