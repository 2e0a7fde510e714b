"""State/store layer.

Per-device stores for queued commands, command history, desired state
and actual (reported) state.  The stores hold no locks of their own;
:class:`pycarlink.coordinator.Coordinator` serialises every access.
"""
