import configparser
import os

DEFAULT_LOCATIONS = [
    "/etc/pkgdag/pkgdag.conf",
    os.path.expanduser("~/.config/pkgdag/pkgdag.conf"),
]

DEFAULTS = {
    "logging": {
        "level": "info",
        "log_to_console": "true",
        "log_to_file": "false",
        "log_file": os.path.expanduser("~/.cache/pkgdag/pkgdag.log"),
        "color_output": "true",
        "log_format": "text",
        "timestamp_utc": "false",
        "max_log_size_kb": "0",
    },
    "graph": {
        "default_arch": "x86_64",
        "config_suffix": ".yaml",
    },
    "pipelines": {},
    "cache": {
        "out_dir": "./cache",
        "workers": "4",
        "timeout": "60",
    },
    "pod": {
        "namespace": "default",
        "sdk_image": "cgr.dev/chainguard/sdk:latest",
        "cpu": "1",
        "ram": "2Gi",
        "service_account": "default",
        "repository_url": "https://packages.wolfi.dev/os",
    },
}


class DagConfig:
    """Settings read from the first pkgdag.conf found; built-in defaults otherwise."""

    def __init__(self, locations=None):
        env = os.environ.get("PKGDAG_CONF")
        if locations is None:
            locations = ([env] if env else []) + DEFAULT_LOCATIONS
        self.locations = list(locations)
        self.config = self._parser()
        self.loaded_from = None
        self.reload()

    @staticmethod
    def _parser():
        # option names are pipeline `uses` keys: keep their case, no % interpolation
        parser = configparser.ConfigParser(interpolation=None)
        parser.optionxform = str
        return parser

    def reload(self):
        """(Re)load defaults, then the first readable file in the search path."""
        self.config = self._parser()
        self.config.read_dict(DEFAULTS)
        self.loaded_from = None
        for path in self.locations:
            if path and os.path.isfile(path):
                self.config.read(path)
                self.loaded_from = path
                return

    def get(self, section, option, fallback=None):
        try:
            return self.config.get(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return fallback

    def getboolean(self, section, option, fallback=False):
        try:
            return self.config.getboolean(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getint(self, section, option, fallback=0):
        try:
            return self.config.getint(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getlist(self, section, option, fallback=None, delimiter=","):
        raw = self.get(section, option, fallback="")
        if raw:
            return [item.strip() for item in raw.split(delimiter) if item.strip()]
        return fallback or []

    def getmapping(self, section, delimiter=","):
        """Every option of a section as name -> list of values."""
        if section not in self.config:
            return {}
        return {opt: self.getlist(section, opt, delimiter=delimiter) for opt in self.config[section]}


# default instance shared by modules that are not handed one explicitly
config = DagConfig()
