from .http import HTTPGenerationTrigger, HTTPSpeechSynthesizer, OpenAICompatibleChat

__all__ = ["HTTPGenerationTrigger", "HTTPSpeechSynthesizer", "OpenAICompatibleChat"]
