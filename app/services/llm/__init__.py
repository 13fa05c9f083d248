from app.services.llm.openai_client import generate_image_bytes, generate_post_content, list_remote_models

__all__ = ["generate_post_content", "generate_image_bytes", "list_remote_models"]
