# Beaver API Package
