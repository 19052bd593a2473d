"""
Pomopilot core: модели, движок циклов, агрегатор сессий, AI сервис
"""
