"""
Package: sqs_queue
Description: SQS message queue operations for scheduled retries.

Provides an async client for sending delayed retry tasks to the
retry queue consumed by the retry worker.
"""
