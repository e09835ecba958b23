from cardiac_trader import create_app, socketio

app = create_app()
 
if __name__ == '__main__':
    # Use SocketIO server so countdown updates reach the browser over websockets
    socketio.run(app, debug=True)
