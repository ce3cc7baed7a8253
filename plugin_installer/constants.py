"""
Константы установщика плагинов.
Централизованное хранение всех магических чисел и строк.
"""

# ============= Paths =============
DEFAULT_DATA_DIR = "/app/data"  # Каталог данных по умолчанию
REGISTRY_FILENAME = "plugins.yaml"  # Файл реестра плагинов (относительно DATA_DIR)
PLUGINS_DIRNAME = "plugins"  # Корень установленных плагинов (относительно DATA_DIR)
TMP_DIRNAME = ".tmp"  # Временные архивы (внутри корня плагинов)
CACHE_DIRNAME = ".cache"  # Кэш индексов маркетплейсов (внутри корня плагинов)
BACKUP_SUFFIX = ".bak"
INSTALL_META_FILENAME = "plugin-install.json"  # Метаданные установленной версии
NESTED_PACKAGE_DIRNAME = "package"  # Вложенный каталог архивов в формате пакета

# Расширения файла реестра, между которыми возможна миграция
REGISTRY_EXTENSIONS = [".yaml", ".yml", ".json"]

# Кандидаты файла конфигурации по умолчанию внутри архива плагина
DEFAULT_CONFIG_FILENAMES = ["config.json", "config.yaml", "config.yml"]

# ============= Limits =============
PLUGIN_ID_MAX_LENGTH = 64  # Максимальная длина id плагина
DOWNLOAD_TIMEOUT = 120.0  # Таймаут скачивания архива (секунды)
DOWNLOAD_CONNECT_TIMEOUT = 10.0  # Таймаут установки соединения (секунды)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # Размер блока при потоковом скачивании
DEPENDENCY_INSTALL_TIMEOUT = 300  # Таймаут установки зависимостей (секунды)
PROCESS_OUTPUT_LOG_LIMIT = 500  # Сколько символов вывода процесса попадает в лог

# ============= Marketplace =============
MARKETPLACE_CACHE_PREFIX = "marketplace-"
SOURCE_TYPE_MARKETPLACE = "marketplace"

# ============= Dist Types =============
DIST_TYPE_ZIP = "zip"
DIST_TYPE_TGZ = "tgz"

# ============= Install Modes =============
INSTALL_MODE_NONE = "none"
INSTALL_MODE_DEPENDENCY = "dependency-install"

# ============= Dependency Install =============
REQUIREMENTS_FILENAME = "requirements.txt"
DEV_REQUIREMENTS_FILENAME = "requirements-dev.txt"
DEPENDENCY_TARGET_DIRNAME = "site-packages"  # Куда pip кладет зависимости плагина

# ============= Policy (env) =============
ENV_DATA_DIR = "DATA_DIR"
ENV_REGISTRY_PATH = "PLUGINS_CONFIG_PATH"
ENV_CACHE_DIR = "PLUGINS_CACHE_DIR"
ENV_ALLOW_NETWORK = "PLUGIN_ALLOW_NETWORK"
ENV_ALLOW_FS = "PLUGIN_ALLOW_FS"
ENV_ALLOW_DEPENDENCY_INSTALL = "PLUGIN_ALLOW_DEPENDENCY_INSTALL"
ENV_ALLOW_INSTALL_SCRIPTS = "PLUGIN_ALLOW_INSTALL_SCRIPTS"
ENV_NETWORK_ALLOWLIST = "PLUGIN_NETWORK_ALLOWLIST"
ENV_DEPENDENCY_REGISTRY = "PLUGIN_DEPENDENCY_REGISTRY"

TRUTHY_VALUES = ['true', '1', 'yes', 'on']
