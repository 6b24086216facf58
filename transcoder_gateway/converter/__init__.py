"""
Conversion orchestration package.

Turns an input payload and a pair of format tags into a transcoded result by
driving an external transcoder process:

- acquire: Resolve an upload, base64 field or remote URL into bytes
- dispatcher: Output format resolution, argument templates and pipe/temp-file selection
- runner: External process execution with concurrent stream draining and scoped temp artifacts
- duration: Output duration parsing from the transcoder's progress output
- result: Success packaging and failure classification
- service: Per-request orchestration used by the HTTP routes
- errors: Classified failure taxonomy
- models: Requests, plans, outcomes and results
"""
