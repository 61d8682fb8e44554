"""
Progress engine components.

Modules:
    - model: Status, DoneBehavior, JobSpec, JobState and snapshots
    - job_tree: Thread-safe job registry
    - handle: Caller-facing JobHandle
    - metrics: Progress counters, rate smoothing and ETA
    - templates: Jinja2 rendering and frame composition
    - flex: Flex markers and progress bars
    - layout: Visual width, truncation and padding
    - spinners: Spinner frame sets
    - terminal: Terminal writer and the shared output lock
    - scheduler: Background render loop and text-mode output

Architecture:
    Worker threads mutate jobs through handles. The scheduler thread
    snapshots the tree under its lock, renders the copy, and writes the
    frame under the terminal lock.
"""
