"""Drive enumeration and RAID controller detection."""
