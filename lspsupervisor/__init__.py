"""Language Server Supervisor.

Supervises an external analysis server (the Rust Language Server by default) on
behalf of an editor host: launching it, routing its stderr, aggregating its
diagnostics activity into a status indicator and forwarding editor commands.
"""

__version__ = "0.1.0"
