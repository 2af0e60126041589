from .flat_plate import FlatPlateGliderDynamics, derivative, find_trim_glide, surface_kinematics

__all__ = ["FlatPlateGliderDynamics", "derivative", "find_trim_glide", "surface_kinematics"]
