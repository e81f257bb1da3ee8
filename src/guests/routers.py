from fastapi import APIRouter

from .features.get_rsvp_info.router import router as get_rsvp_info_router
from .features.qr_codes.router import router as qr_codes_router
from .features.redeem_qr_code.router import router as redeem_qr_code_router
from .features.request_qr_dispatch.router import router as request_qr_dispatch_router
from .features.submit_rsvp.router import router as submit_rsvp_router

router = APIRouter()

router.include_router(get_rsvp_info_router)
router.include_router(submit_rsvp_router)
router.include_router(qr_codes_router)
router.include_router(request_qr_dispatch_router)
router.include_router(redeem_qr_code_router)
