"""Proxy to the hosted Piston code-execution API."""
