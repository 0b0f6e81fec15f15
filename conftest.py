import os

os.environ.setdefault("MPLBACKEND", "Agg")
os.environ.setdefault("NLDIFFUSION_USETEX", "no")
