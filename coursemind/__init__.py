"""CourseMind: course-material ingestion and retrieval-augmented generation."""

__version__ = "0.1.0"
