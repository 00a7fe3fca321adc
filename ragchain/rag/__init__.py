"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Document loading (text, PDF, web pages)
- Recursive text splitting with overlap
- Embedding generation
- FAISS vector storage with file snapshots
- Semantic retrieval and grounded answers
"""
