"""Gateway core module

Keeps a single moltbot gateway process alive and reachable inside the
sandbox: process discovery, readiness probing, and the startup coordinator
that deduplicates concurrent "ensure running" requests.

Process execution and storage mounting are delegated to the sandbox SDK;
this package only orchestrates them.
"""
