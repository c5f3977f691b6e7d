"""Test helper utilities for Student Records Notifier tests."""

from .fakes import DeferredExecutor, FakeTransport, FixedClock, InlineExecutor

__all__ = ["InlineExecutor", "DeferredExecutor", "FakeTransport", "FixedClock"]
