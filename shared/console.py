"""
Console output utilities with color support

Provides consistent message formatting for the command-line tools.
"""

from colorama import Fore, Style


def _emit(color: str, prefix: str, message: str, indent: int):
    print(f"{'  ' * indent}{color}{prefix} {message}{Style.RESET_ALL}")


def print_success(message: str, indent: int = 0):
    """Print success message in green with [+] prefix"""
    _emit(Fore.GREEN, "[+]", message, indent)


def print_info(message: str, indent: int = 0):
    """Print info message in cyan with [*] prefix"""
    _emit(Fore.CYAN, "[*]", message, indent)


def print_warning(message: str, indent: int = 0):
    """Print warning message in yellow with [!] prefix"""
    _emit(Fore.YELLOW, "[!]", message, indent)


def print_error(message: str, indent: int = 0):
    """Print error message in red with [ERROR] prefix"""
    _emit(Fore.RED, "[ERROR]", message, indent)


def print_header(title: str, width: int = 60, color=Fore.CYAN):
    """Print a formatted header"""
    separator = "=" * width
    print(f"\n{color}{separator}")
    print(f"   {title}")
    print(f"{separator}{Style.RESET_ALL}\n")


def format_key_value(key: str, value, width: int = 20) -> str:
    """Format key-value pair with alignment"""
    return f"{key:>{width}}: {value}"
