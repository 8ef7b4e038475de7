"""Sandboxed execution of solution scripts.

`aocd safe-run` starts a loopback service (`app`) in the trusted parent and
runs the script under `guard`, which limits the child's network access to
that service. The service forwards only getInput and submit to the parent's
DirectSource, so the child never sees the session cookie.
"""
