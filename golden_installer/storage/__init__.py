"""Tool adapters for block devices, partition tables, LVM, filesystems and mounts."""
