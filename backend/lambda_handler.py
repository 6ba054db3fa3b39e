from mangum import Mangum
from main import app

# AWS Lambda entrypoint. API Gateway buffers responses, so SSE arrives in one
# piece there; use a Lambda Function URL with response streaming or an ASGI
# host for live relaying.
handler = Mangum(app)
