from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    # Chat / completion provider (OpenAI-compatible API)
    openai_base_url: str = "https://api.openai.com/v1"
    openai_api_key: str = ""
    chat_model: str = "gpt-4o"
    fallback_chat_model: str = "gpt-4o-mini"
    routing_model: str = "gpt-4o-mini"
    llm_max_tokens: int = 2000
    llm_temperature: float = 0.3

    # Embeddings
    embedding_backend: str = "openai"  # "openai" | "sentence_transformers"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = 1536
    embedding_batch_size: int = 64
    embedding_warmup: bool = False  # load local model at startup

    chroma_host: str = "localhost"
    chroma_port: int = 8001
    chroma_collection: str = "docground_documents"

    searxng_url: str = "http://localhost:8080"
    web_search_timeout: float = 20.0
    web_search_max_results: int = 8

    # Chunking
    chunk_size: int = 800
    chunk_overlap: int = 150
    min_chunk_size: int = 200
    max_chunk_size: int = 1200

    # Retrieval
    rag_top_k: int = 30
    rag_limit: int = 10
    rag_threshold: float = 0.1
    hybrid_threshold: float = 0.2
    semantic_weight: float = 0.7
    keyword_weight: float = 0.3
    candidate_multiplier: int = 2

    classifier_timeout: float = 5.0
    vectorize_concurrency: int = 3

    # Orchestration
    orchestrator_max_tokens: int = 2000
    context_budget_ratio: float = 0.7
    min_confidence_no_web: float = 0.7
    min_coverage_no_web: float = 0.5
    enable_web_search: bool = False

    router_config_path: str = "router_config.json"
    router_threshold: float = 0.78

    metrics_buffer_size: int = 1000
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
