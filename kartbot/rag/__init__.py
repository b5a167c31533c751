"""
RAG (Retrieval Augmented Generation) module for the kartbot assistant.

Components:
    - chunker: Flattens a knowledge snapshot into retrievable chunks
    - embedder: Generates embeddings via OpenAI text-embedding-3-small
    - vector_index: In-memory cosine k-NN index with atomic rebuilds
"""
