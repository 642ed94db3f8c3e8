"""Build, read and write xv6-format file-system images: cache, log, inodes, directories, pipes and file tools."""

__version__ = "0.1.0"