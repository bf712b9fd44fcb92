"""Spreadsheet ingestion: readers, pure row mappers and the batch importer."""
