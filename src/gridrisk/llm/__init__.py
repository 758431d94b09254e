from src.gridrisk.llm.client import TextGenerationClient

__all__ = ["TextGenerationClient"]
