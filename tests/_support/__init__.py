"""
Test support utilities for typedrow tests.

Entity declarations live in :mod:`tests._support.models` (module level, so
their annotations resolve), and the recording executor / capturing logger
doubles in :mod:`tests._support.recording`.
"""
