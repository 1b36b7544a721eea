# =======================================================================================
# vehicle_gate/services/__init__.py - Services Package
# =======================================================================================
from .authorizer import Authorizer, HttpAuthorizer, SqlProcedureAuthorizer, build_authorizer
from .frame_codec import FrameBuffer, classify_frame, extract_tag_id, parse_command
from .gate_controller import GateController
from .tag_validator import TagValidator

__all__ = [
    "Authorizer", "HttpAuthorizer", "SqlProcedureAuthorizer", "build_authorizer",
    "FrameBuffer", "classify_frame", "extract_tag_id", "parse_command",
    "GateController", "TagValidator",
]
