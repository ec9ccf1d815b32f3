"""actionforge job monitor — passive presentation of submission state.

The monitor NEVER drives a submission.  It subscribes to ``JobMachine``
transitions and renders whatever snapshot it is handed.

Modules
-------
renderer
    ``JobRenderer`` turns ``JobSnapshot``, artifact lists and access
    reports into Rich renderables for terminal display.
"""

from actionforge.monitor.renderer import JobRenderer

__all__ = ["JobRenderer"]
