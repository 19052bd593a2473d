#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pomopilot - Database Manager
Хранилище ключ-значение для настроек таймера и сохраненных сессий
"""

import json
import shutil
import threading
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Any
from dataclasses import dataclass

from pomopilot.core.models import TimerSettings, Session

logger = logging.getLogger(__name__)

# ===== EXCEPTIONS =====

class DatabaseError(Exception):
    """Базовое исключение для ошибок базы данных"""
    pass

class DatabaseCorruptionError(DatabaseError):
    """Ошибка повреждения данных"""
    pass

# ===== HELPER CLASSES =====

@dataclass
class DatabaseStats:
    """Статистика базы данных"""
    last_save: Optional[str] = None
    last_load: Optional[str] = None
    save_count: int = 0
    load_count: int = 0
    error_count: int = 0
    skipped_records: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'last_save': self.last_save,
            'last_load': self.last_load,
            'save_count': self.save_count,
            'load_count': self.load_count,
            'error_count': self.error_count,
            'skipped_records': self.skipped_records
        }

# ===== STORES =====

class KeyValueStore:
    """Базовое хранилище строк по ключу"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class InMemoryStore(KeyValueStore):
    """Хранилище в памяти процесса"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class JsonFileStore(KeyValueStore):
    """Хранилище в одном JSON-файле с атомарной записью"""

    def __init__(self, data_file: Path):
        self.data_file = Path(data_file)
        self.file_lock = threading.Lock()
        self._data: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        if not self.data_file.exists():
            logger.info(f"Store file {self.data_file} does not exist, starting empty")
            return

        try:
            with self.file_lock:
                with open(self.data_file, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            if not isinstance(data, dict):
                raise DatabaseCorruptionError("Store root must be a JSON object")
        except (ValueError, OSError, DatabaseCorruptionError) as e:
            logger.error(f"Store file is corrupted: {e}")
            self._handle_corruption()
            return

        self._data = {key: value for key, value in data.items() if isinstance(value, str)}
        logger.info(f"Loaded store {self.data_file} ({len(self._data)} keys)")

    def _handle_corruption(self) -> None:
        """Поврежденный файл откладывается в сторону, работа начинается с пустого хранилища"""
        corrupt_file = self.data_file.with_suffix('.corrupt')
        try:
            shutil.move(self.data_file, corrupt_file)
            logger.warning(f"Corrupted store moved to {corrupt_file}")
        except OSError as e:
            logger.error(f"Failed to move corrupted store aside: {e}")
        self._data = {}

    def _save_data_sync(self) -> None:
        """Синхронное сохранение данных"""
        with self.file_lock:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            # Атомарное сохранение через временный файл
            temp_file = self.data_file.with_suffix('.tmp')

            try:
                with open(temp_file, 'w', encoding='utf-8') as f:
                    json.dump(self._data, f, ensure_ascii=False, indent=2)

                # Проверяем целостность записанного файла
                with open(temp_file, 'r', encoding='utf-8') as f:
                    json.load(f)

                if self.data_file.exists():
                    backup_file = self.data_file.with_suffix('.prev')
                    shutil.move(self.data_file, backup_file)

                shutil.move(temp_file, self.data_file)

                backup_file = self.data_file.with_suffix('.prev')
                if backup_file.exists():
                    backup_file.unlink()

            except Exception as e:
                if temp_file.exists():
                    temp_file.unlink()
                raise DatabaseError(f"Failed to write store: {e}") from e

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._save_data_sync()

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._save_data_sync()

    def keys(self) -> List[str]:
        return list(self._data.keys())

# ===== MAIN DATABASE MANAGER =====

class DatabaseManager:
    """(Де)сериализация настроек и сессий поверх хранилища ключ-значение"""

    SETTINGS_KEY = "timerSettings"
    SESSIONS_KEY = "savedSessions"

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.stats = DatabaseStats()
        self.last_error: Optional[str] = None

    # ===== SETTINGS =====

    def load_settings(self) -> TimerSettings:
        data = self._read_json(self.SETTINGS_KEY)
        if data is None:
            return TimerSettings.default()
        if not isinstance(data, dict):
            logger.warning("Stored timer settings are not an object, using defaults")
            self.stats.skipped_records += 1
            return TimerSettings.default()
        return TimerSettings.from_dict(data)

    def save_settings(self, settings: TimerSettings) -> bool:
        return self._write_json(self.SETTINGS_KEY, settings.to_dict())

    # ===== SESSIONS =====

    def load_sessions(self) -> List[Session]:
        data = self._read_json(self.SESSIONS_KEY)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning("Stored sessions are not a list, starting fresh")
            self.stats.skipped_records += 1
            return []

        sessions = []
        for raw in data:
            if not isinstance(raw, dict):
                logger.warning(f"Skipping malformed session entry: {raw!r}")
                self.stats.skipped_records += 1
                continue
            try:
                sessions.append(Session.from_dict(raw))
            except Exception as e:
                logger.warning(f"Failed to load session {raw.get('id')}: {e}")
                self.stats.skipped_records += 1

        logger.info(f"Loaded {len(sessions)} sessions")
        return sessions

    def save_sessions(self, sessions: List[Session]) -> bool:
        return self._write_json(self.SESSIONS_KEY, [session.to_dict() for session in sessions])

    def clear_sessions(self) -> bool:
        try:
            self.store.delete(self.SESSIONS_KEY)
            self.stats.save_count += 1
            self.stats.last_save = datetime.now().isoformat()
            self.last_error = None
            return True
        except Exception as e:
            return self._record_error(f"Failed to clear sessions: {e}")

    # ===== INTERNALS =====

    def _read_json(self, key: str) -> Any:
        raw = self.store.get(key)
        self.stats.load_count += 1
        self.stats.last_load = datetime.now().isoformat()
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            logger.error(f"Failed to decode '{key}': {e}")
            self.stats.error_count += 1
            self.last_error = str(e)
            return None

    def _write_json(self, key: str, payload: Any) -> bool:
        try:
            self.store.set(key, json.dumps(payload, ensure_ascii=False))
        except Exception as e:
            return self._record_error(f"Failed to save '{key}': {e}")

        self.stats.save_count += 1
        self.stats.last_save = datetime.now().isoformat()
        self.last_error = None
        return True

    def _record_error(self, message: str) -> bool:
        logger.error(f"❌ {message}")
        self.stats.error_count += 1
        self.last_error = message
        return False

    def get_stats(self) -> Dict[str, Any]:
        return {
            'database': self.stats.to_dict(),
            'keys': self.store.keys(),
            'last_error': self.last_error
        }


__all__ = [
    'DatabaseError',
    'DatabaseCorruptionError',
    'DatabaseStats',
    'KeyValueStore',
    'InMemoryStore',
    'JsonFileStore',
    'DatabaseManager'
]
