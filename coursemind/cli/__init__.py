"""Command-line tools for operators.

``python -m coursemind.cli process-jobs`` runs one ingestion batch outside
the web server (for a system cron or a manual retry), and
``python -m coursemind.cli enqueue`` uploads a local file as a new
material with a pending job.
"""
