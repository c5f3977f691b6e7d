"""Student Records Notifier.

Persisted email queue with bounded-retry dispatch and once-per-day report
scheduling for the student-records administration backend.
"""

__version__ = "1.0.0"
