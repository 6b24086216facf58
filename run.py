from transcoder_gateway.main import app, run  # noqa: F401

# Run the gateway
if __name__ == "__main__":
    run()
