"""
Suspicious keyword lists for the keyword-count vectorizers.

Order matters: position i of a feature vector is the count of KEYWORDS[i].
Matching is plain, case-sensitive substring counting.
"""

from typing import Dict, List

from ..core.models import VectorizeMode

SQL_INJECTION_KEYWORDS: List[str] = [
    "&#039", "*", ";", "%20", "--",
    "select", "delete", "create", "drop", "alter",
    "insert", "update", "set", "from", "where",
    "union", "all", "like",
    "and", "&", "or", "|",
    "user", "username", "passwd", "id", "admin", "information_schema",
]

OS_COMMAND_KEYWORDS: List[str] = [
    "rm%20", "cat%20", "wget%20",
    "curl%20", "sudo%20", "ssh%20",
    "usermod%20", "useradd%20", "grep%20", "ls%20",
    ";", "|", "&",
    "/bin", "/dev", "/home", "/lib", "/misc", "/opt",
    "/root", "/tftpboot", "/usr", "/boot", "/etc", "/initrd",
    "/lost+found", "/mnt", "/proc", "/sbin", "/tmp", "/var",
]

DIRECTORY_TRAVERSAL_KEYWORDS: List[str] = [
    "../", "..\\", ":\\",
    "/bin", "/dev", "/home", "/lib", "/misc", "/opt",
    "/root", "/tftpboot", "/usr", "/boot", "/etc/", "/initrd",
    "/lost+found", "/mnt", "/proc", "/sbin", "/tmp", "/var",
]

KEYWORD_SETS: Dict[VectorizeMode, List[str]] = {
    VectorizeMode.SQL: SQL_INJECTION_KEYWORDS,
    VectorizeMode.OS: OS_COMMAND_KEYWORDS,
    VectorizeMode.DIR: DIRECTORY_TRAVERSAL_KEYWORDS,
}


def keywords_for(mode: VectorizeMode) -> List[str]:
    """Copy of the keyword list owned by a keyword-count mode"""
    try:
        return list(KEYWORD_SETS[mode])
    except KeyError:
        raise ValueError(f"{mode.value} is not a keyword-count mode") from None
