"""Domain services: AI client, extraction, chunking, retrieval, structured
output and the generation use-cases."""
