import datetime
import json
import os
import sys
import threading

from pkgdag.modules.config import config as default_config


class Logger:
    LEVELS = {
        "debug": 10,
        "info": 20,
        "success": 25,
        "warning": 30,
        "error": 40,
    }

    LOG_COLORS = {
        "DEBUG": "\033[90m",    # grey
        "INFO": "\033[94m",     # blue
        "SUCCESS": "\033[92m",  # green
        "WARNING": "\033[93m",  # yellow
        "ERROR": "\033[91m",    # red
        "RESET": "\033[0m"
    }

    def __init__(self, name="pkgdag", settings=None, stream=None):
        settings = settings or default_config
        self.name = name
        self.stream = stream
        self.log_file = settings.get("logging", "log_file", fallback="pkgdag.log")
        self.color_output = settings.getboolean("logging", "color_output", fallback=True)
        self.log_to_file = settings.getboolean("logging", "log_to_file", fallback=False)
        self.log_to_console = settings.getboolean("logging", "log_to_console", fallback=True)
        self.use_utc = settings.getboolean("logging", "timestamp_utc", fallback=False)
        self.log_format = settings.get("logging", "log_format", fallback="text").lower()
        self.max_log_size_kb = settings.getint("logging", "max_log_size_kb", fallback=0)

        level_str = settings.get("logging", "level", fallback="info").lower()
        self.min_level = self.LEVELS.get(level_str, 20)

        if self.log_to_file:
            self._ensure_dir(self.log_file)

        self._lock = threading.Lock()

    def set_level(self, level):
        self.min_level = self.LEVELS.get(level.lower(), self.min_level)

    def _ensure_dir(self, filepath):
        dirpath = os.path.dirname(filepath)
        if not dirpath:
            return
        try:
            os.makedirs(dirpath, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Logger: cannot create log directory {dirpath}: {e}\n")
            self.log_to_file = False

    def _get_timestamp(self):
        now = datetime.datetime.now(datetime.timezone.utc) if self.use_utc else datetime.datetime.now()
        return now.strftime("%Y-%m-%d %H:%M:%S")

    def _rotate_if_needed(self, filepath):
        if self.max_log_size_kb <= 0:
            return
        if os.path.exists(filepath) and os.path.getsize(filepath) > self.max_log_size_kb * 1024:
            rotated = filepath + ".1"
            try:
                if os.path.exists(rotated):
                    os.remove(rotated)
                os.rename(filepath, rotated)
            except OSError as e:
                sys.stderr.write(f"Logger: cannot rotate {filepath}: {e}\n")

    def _write_file(self, filepath, message):
        if not self.log_to_file:
            return
        self._rotate_if_needed(filepath)
        try:
            with open(filepath, "a", encoding="utf-8") as f:
                f.write(message + "\n")
        except OSError as e:
            sys.stderr.write(f"Logger: cannot write {filepath}: {e}\n")

    def _format_text(self, level, message):
        timestamp = self._get_timestamp()
        return f"[{timestamp}] [{self.name}] [{level}] {message}"

    def _format_json(self, level, message):
        return json.dumps({
            "timestamp": self._get_timestamp(),
            "logger": self.name,
            "level": level,
            "message": message
        })

    def _format_message(self, level, message):
        if self.log_format == "json":
            return self._format_json(level, message)
        return self._format_text(level, message)

    def _log_to_console(self, formatted, level):
        if not self.log_to_console:
            return
        # stdout carries command output (targets, dot, yaml)
        stream = self.stream or sys.stderr
        if self.color_output and self.log_format == "text" and stream.isatty():
            color = self.LOG_COLORS.get(level.upper(), "")
            reset = self.LOG_COLORS.get("RESET", "")
            stream.write(f"{color}{formatted}{reset}\n")
        else:
            stream.write(formatted + "\n")

    def _should_log(self, level):
        return self.LEVELS.get(level.lower(), 0) >= self.min_level

    def log(self, level, message):
        level = level.upper()
        if not self._should_log(level):
            return

        formatted = self._format_message(level, message)
        with self._lock:
            self._log_to_console(formatted, level)
            self._write_file(self.log_file, formatted)

    def debug(self, message):
        self.log("DEBUG", message)

    def info(self, message):
        self.log("INFO", message)

    def success(self, message):
        self.log("SUCCESS", message)

    def warning(self, message):
        self.log("WARNING", message)

    def error(self, message):
        self.log("ERROR", message)
