"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Line-based document chunking
- The JSON vector store (one record per document)
- Embedding-based indexing with retry
- Cosine-similarity ranking and context assembly
- Question answering
- Input folder watching and legacy store upgrades
"""
