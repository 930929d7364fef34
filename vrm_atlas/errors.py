"""Custom exceptions for texture atlas optimization"""


class OptimizationError(Exception):
    """Base exception for optimizer errors"""
    code = "UNKNOWN_ERROR"


class InvalidContainerError(OptimizationError):
    """Malformed GLB header or chunk structure"""
    code = "INVALID_CONTAINER"


class UnsupportedSchemaError(OptimizationError):
    """Neither VRM 0.x nor VRM 1.0 markers were found"""
    code = "UNSUPPORTED_SCHEMA"


class InvalidTextureError(OptimizationError):
    """A referenced texture has no decodable pixel source"""
    code = "INVALID_TEXTURE"


class NoEligibleMaterialsError(OptimizationError):
    """Every material candidate was rejected"""
    code = "NO_ELIGIBLE_MATERIALS"


class PackingFailedError(OptimizationError):
    """Rectangles could not be packed, even after downscaling"""
    code = "PACKING_FAILED"

    def __init__(self, message: str, scale: float = 1.0):
        super().__init__(message)
        self.scale = scale


class CompositeFailedError(OptimizationError):
    """Pixel buffer size mismatch while assembling an atlas"""
    code = "COMPOSITE_FAILED"


class InvalidStateError(OptimizationError):
    """Rewriter operation called out of sequence"""
    code = "INVALID_STATE"


class UnknownError(OptimizationError):
    """Unexpected lower-level failure (I/O, image library, ...)"""
    code = "UNKNOWN_ERROR"
