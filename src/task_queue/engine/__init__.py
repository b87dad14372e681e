"""Task lifecycle engine.

The queue is a single SQLite file shared by producers, the worker pool and the
scheduler.  Every lifecycle write is a conditional update on the stored status,
so two writers racing on the same task cannot both apply a transition.
"""
