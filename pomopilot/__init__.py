"""
Pomopilot - помодоро-таймер с AI-сопровождением
"""

__version__ = "1.0.0"
