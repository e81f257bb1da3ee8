import io

import qrcode


def render_qr_png(code: str, box_size: int = 10, border: int = 2) -> bytes:
    """Render a QR code token as a black on white PNG."""
    qr = qrcode.QRCode(version=1, box_size=box_size, border=border)
    qr.add_data(code)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    img_buffer = io.BytesIO()
    img.save(img_buffer, format="PNG")
    return img_buffer.getvalue()
