"""Audio capture components: binary probing, device discovery, supervision."""
