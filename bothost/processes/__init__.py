"""Process management — OS-level subprocess supervision.

bothost treats every hosted bot as a process. This package provides:
- ProcessSupervisor: spawn, track and stop one OS process per bot
- Runtime: per-language entry-file conventions and interpreter
"""
