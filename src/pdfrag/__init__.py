"""pdfrag: question answering over PDF documents with pgvector and OpenAI."""

__version__ = "0.1.0"
