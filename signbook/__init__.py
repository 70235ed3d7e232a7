"""
Sign-book preprocessing service.

The package ingests marker-delimited text documents and splits them into
stored page records. It exposes dataclasses for documents and pages, a
status state machine persisted through a repository, a line reader, the
page splitter, marker resolution strategies, a file lifecycle manager and a
polling scheduler that drives documents through the pipeline.
"""
